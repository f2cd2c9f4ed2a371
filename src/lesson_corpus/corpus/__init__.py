from .activities import ActivityStore
from .categories import CATEGORY_ORDER, generate_title, sort_categories
from .half_terms import HalfTermIndex, default_half_terms
from .lessons import LessonStore
from .plans import LessonPlanStore
from .renumbering import RenumberingEngine
from .stacks import ActivityStackStore
from .standards import StandardsCatalog
from .state import CorpusState, PartitionState
from .units import UnitStore

__all__ = [
    "ActivityStackStore",
    "ActivityStore",
    "CATEGORY_ORDER",
    "CorpusState",
    "HalfTermIndex",
    "LessonPlanStore",
    "LessonStore",
    "PartitionState",
    "RenumberingEngine",
    "StandardsCatalog",
    "UnitStore",
    "default_half_terms",
    "generate_title",
    "sort_categories",
]
