from .cache import QuestionCache
from .supplier import QuestionSupplier, format_for_player

__all__ = ['QuestionCache', 'QuestionSupplier', 'format_for_player']
