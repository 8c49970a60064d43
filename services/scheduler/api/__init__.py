from services.scheduler.api.invitations import router as invitations_router  # noqa: F401
from services.scheduler.api.join import router as join_router  # noqa: F401
from services.scheduler.api.meetings import router as meetings_router  # noqa: F401
