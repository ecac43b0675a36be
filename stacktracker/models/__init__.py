"""Database models — re-exports all models.

Import from here:  from stacktracker.models import Customer, Baseline, ...
Or from submodules: from stacktracker.models.catalog import Tool
"""

from .base import Base  # noqa: F401

# Catalog: Categories, Tools, Baselines
from .catalog import Baseline, Category, Tool  # noqa: F401

# Customers
from .customers import SERVICE_TIERS, Customer  # noqa: F401

# ConnectWise integration
from .connectwise import (  # noqa: F401
    ConnectwiseSettings,
    ConnectwiseSkuMapping,
    ConnectwiseTypeMapping,
)

# Sync
from .sync import SyncLog  # noqa: F401
