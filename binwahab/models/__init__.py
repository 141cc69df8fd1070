# binwahab/models/__init__.py

from .users import *
from .catalog import *
from .ecommerce import *
from .returns import *
from .inventory import *
# import every model file here
