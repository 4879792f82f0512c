from trendpulse.services.aggregator import Aggregator
from trendpulse.services.editorial_svc import EditorialNewsService
from trendpulse.services.leaders_svc import SourceLeadersService
from trendpulse.services.normalizer import Normalizer
from trendpulse.services.quality import QualityGate
from trendpulse.services.research_svc import ResearchService
from trendpulse.services.scorer import Scorer
from trendpulse.services.themes_svc import TopThemesService

__all__ = [
    "Aggregator",
    "EditorialNewsService",
    "Normalizer",
    "QualityGate",
    "ResearchService",
    "Scorer",
    "SourceLeadersService",
    "TopThemesService",
]
