from .targets import *  # noqa
from .controls import *  # noqa
from .evaluation import *  # noqa
from .limits import *  # noqa
from .configuration import *  # noqa
from .forces import *  # noqa
from .updates import *  # noqa
