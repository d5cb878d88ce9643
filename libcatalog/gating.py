"""Route gating for protected and admin-only views."""
import logging
from enum import Enum
from typing import Callable, Optional

from libcatalog.session import SessionSnapshot

logger = logging.getLogger(__name__)

ADMIN_ONLY_WARNING = "Only admins can access the Admin page."


class GateDecision(str, Enum):
    RENDER_NOTHING = "render_nothing"
    REDIRECT_SIGN_IN = "redirect_sign_in"
    REDIRECT_HOME = "redirect_home"
    RENDER = "render"


def decide(snapshot: SessionSnapshot, admin_only: bool = False) -> GateDecision:
    """
    Decide what a protected region shows for a session snapshot.

    While the session is loading nothing is rendered, so a signed-in
    user never sees a redirect before resolution finishes.
    """
    if snapshot.is_loading:
        return GateDecision.RENDER_NOTHING
    if not snapshot.is_authenticated:
        return GateDecision.REDIRECT_SIGN_IN
    if admin_only and not snapshot.is_admin:
        return GateDecision.REDIRECT_HOME
    return GateDecision.RENDER


class RouteGuard:
    """Gate for one mounted protected region.

    A non-admin turned away from an admin-only region is warned once per
    guard instance; a new instance starts with a fresh latch.
    """

    def __init__(self, admin_only: bool = False, warn: Optional[Callable[[str], None]] = None):
        self.admin_only = admin_only
        self.warn = warn or logger.warning
        self._warned = False

    @property
    def warned(self) -> bool:
        return self._warned

    def evaluate(self, snapshot: SessionSnapshot) -> GateDecision:
        decision = decide(snapshot, admin_only=self.admin_only)
        if decision is GateDecision.REDIRECT_HOME and not self._warned:
            self._warned = True
            self.warn(ADMIN_ONLY_WARNING)
        return decision
