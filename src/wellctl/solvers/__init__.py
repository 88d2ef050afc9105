from .base import *  # noqa
from .presolve import *  # noqa
