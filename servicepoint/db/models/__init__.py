# import every model so Base.metadata knows all tables
from servicepoint.db.models.admin import Admin
from servicepoint.db.models.booking import Booking, StatusHistoryEntry
from servicepoint.db.models.garage import Garage
from servicepoint.db.models.service import Service
from servicepoint.db.models.user import User, Vehicle

__all__ = ["Admin", "Booking", "StatusHistoryEntry", "Garage", "Service", "User", "Vehicle"]
