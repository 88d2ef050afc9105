"""
*wellctl*

Well controls, operating limits and a bounded well presolve for reservoir simulators.
"""

from ._precision import *  # noqa
from .constants import *  # noqa
from .types import *  # noqa
from .errors import *  # noqa
from .config import *  # noqa
from .wells import *  # noqa
from .states import *  # noqa
from .solvers import *  # noqa
from .models import *  # noqa
from .simulate import *  # noqa
