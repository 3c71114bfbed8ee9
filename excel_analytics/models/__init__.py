from excel_analytics.models.db_models import ChartRecord
from excel_analytics.models.user_model import User, UserRole

__all__ = ["ChartRecord", "User", "UserRole"]
