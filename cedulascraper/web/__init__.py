from .cedulas_api import (
    create_app as create_app,
)
from .cedulas_api import (
    server as server,
)
