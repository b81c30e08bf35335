from .pager import Pager
from .result_set import ResultSet
from .row import Row

__all__ = ["Pager", "ResultSet", "Row"]
