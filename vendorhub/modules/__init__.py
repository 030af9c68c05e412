"""Domain modules package."""

from vendorhub.modules.booking import models as booking_models  # noqa: F401
from vendorhub.modules.catalog import models as catalog_models  # noqa: F401
from vendorhub.modules.identity import models as identity_models  # noqa: F401
