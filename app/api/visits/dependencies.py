from app.api.visits.lifecycle import VisitLifecycle, lifecycle


def get_lifecycle() -> VisitLifecycle:
    return lifecycle
