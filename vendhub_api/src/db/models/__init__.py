"""
ORM models for VendHub domain entities.

Importing this package registers every mapped class with Base.metadata for
Alembic and runtime use.
"""

from .tenancy import Tenant  # noqa: F401
from .security import (  # noqa: F401
    User,
    Role,
    Permission,
    UserRole,
    RolePermission,
)
from .products import (  # noqa: F401
    Product,
    ProductPriceHistory,
)
from .contracts import (  # noqa: F401
    Contractor,
    Contract,
    CommissionCalculation,
)
from .machines import (  # noqa: F401
    Machine,
    MachineSlot,
    MachineErrorLog,
)
from .inventory import (  # noqa: F401
    WarehouseInventory,
    OperatorInventory,
    MachineInventory,
    InventoryMovement,
)
from .orders import (  # noqa: F401
    Order,
    OrderItem,
)
from .promo import (  # noqa: F401
    PromoCode,
    PromoCodeRedemption,
)
from .payments import (  # noqa: F401
    PaymentTransaction,
    PaymentRefund,
)
from .fiscal import (  # noqa: F401
    FiscalDevice,
    FiscalShift,
    FiscalReceipt,
    FiscalQueueItem,
)
from .maintenance import (  # noqa: F401
    MaintenanceRequest,
    MaintenancePart,
    MaintenanceWorkLog,
    MaintenanceSchedule,
)
