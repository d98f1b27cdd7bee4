# Import all models here to ensure SQLAlchemy can set up relationships correctly
from app.api.activity_logs.models import ActivityLog
from app.api.users.models import User
from app.api.visitors.models import Visitor
from app.api.visits.models import Visit

# Re-export all models
__all__ = [
    'ActivityLog',
    'User',
    'Visit',
    'Visitor',
]
