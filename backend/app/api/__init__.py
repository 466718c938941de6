"""
API Routers package.

Router modules are re-exported so `app.main` can import and register them.
"""

from . import advertising_costs  # noqa: F401
from . import orders  # noqa: F401
from . import profit_forecast  # noqa: F401
from . import registry  # noqa: F401
from . import sheet_sync  # noqa: F401
