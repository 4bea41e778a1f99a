"""
Tagged reference to a bookable provider.

Bookings, availability checks and pricing operate over ``ProviderRef``
instead of branching on guide vs. driver in parallel code paths.
"""

from dataclasses import dataclass
from typing import Iterable, List

from providers.models import DriverProfile, GuideProfile, ProviderKind
from services.exceptions import ProviderNotFound

_MODELS = {
    ProviderKind.GUIDE: GuideProfile,
    ProviderKind.DRIVER: DriverProfile,
}


@dataclass(frozen=True)
class ProviderRef:
    kind: str
    id: int

    def __post_init__(self):
        if self.kind not in _MODELS:
            raise ValueError(f"Unknown provider kind: {self.kind!r}")

    @classmethod
    def guide(cls, provider_id: int) -> "ProviderRef":
        return cls(ProviderKind.GUIDE, provider_id)

    @classmethod
    def driver(cls, provider_id: int) -> "ProviderRef":
        return cls(ProviderKind.DRIVER, provider_id)

    @property
    def model(self):
        return _MODELS[self.kind]

    @property
    def booking_field(self) -> str:
        """Name of the Booking foreign key that points at this kind."""
        return str(self.kind)

    def resolve(self, for_update: bool = False):
        """Fetch the profile, optionally taking a row lock (inside atomic)."""
        qs = self.model.objects.select_related("user")
        if for_update:
            qs = qs.select_for_update()
        try:
            return qs.get(pk=self.id)
        except self.model.DoesNotExist:
            raise ProviderNotFound(f"{self.kind.capitalize()} {self.id} not found")


def lock_order(refs: Iterable[ProviderRef]) -> List[ProviderRef]:
    """
    Stable order in which provider rows are locked: guides before drivers,
    then by id. Every writer uses it, so two transactions naming the same
    providers can never wait on each other in opposite order.
    """
    rank = {ProviderKind.GUIDE: 0, ProviderKind.DRIVER: 1}
    return sorted(set(refs), key=lambda ref: (rank[ref.kind], ref.id))
