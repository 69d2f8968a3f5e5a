"""
Provisioning report - outcome of one provisioning run.

One PanelOutcome per declared panel, in configuration order.
Immutable (frozen dataclasses), serializable with to_dict()/from_dict().
"""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple


class OutcomeStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class PanelOutcome:
    """
    Result for a single panel.

    Attributes:
        panel_id: Bus address of the panel
        label: Panel display name
        panel_type: Panel model
        status: SUCCEEDED or FAILED
        sources_populated: Count written to the source list register
        destinations_populated: Count written to the destination list register
        overflow: True if a list was truncated to the register width
        reason: Failure reason (FAILED only)
    """
    panel_id: int
    label: str
    panel_type: str
    status: OutcomeStatus
    sources_populated: int = 0
    destinations_populated: int = 0
    overflow: bool = False
    reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.SUCCEEDED

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['status'] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PanelOutcome':
        """
        Deserialize from dict.

        Raises:
            ValueError: If required keys missing or invalid values
        """
        try:
            return cls(
                panel_id=int(data['panel_id']),
                label=str(data['label']),
                panel_type=str(data['panel_type']),
                status=OutcomeStatus(data['status']),
                sources_populated=int(data.get('sources_populated', 0)),
                destinations_populated=int(data.get('destinations_populated', 0)),
                overflow=bool(data.get('overflow', False)),
                reason=data.get('reason'),
            )
        except KeyError as e:
            raise ValueError(f"Missing required PanelOutcome field: {e}")
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid PanelOutcome data: {e}")


@dataclass(frozen=True)
class ProvisioningReport:
    """Aggregated outcomes of a provisioning run, in input order."""

    outcomes: Tuple[PanelOutcome, ...] = ()

    def __len__(self) -> int:
        return len(self.outcomes)

    def __iter__(self) -> Iterator[PanelOutcome]:
        return iter(self.outcomes)

    @property
    def is_empty(self) -> bool:
        return not self.outcomes

    @property
    def succeeded(self) -> List[PanelOutcome]:
        return [o for o in self.outcomes if o.status is OutcomeStatus.SUCCEEDED]

    @property
    def failed(self) -> List[PanelOutcome]:
        return [o for o in self.outcomes if o.status is OutcomeStatus.FAILED]

    def get(self, panel_id: int) -> Optional[PanelOutcome]:
        for outcome in self.outcomes:
            if outcome.panel_id == panel_id:
                return outcome
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'panel_count': len(self.outcomes),
            'succeeded_count': len(self.succeeded),
            'failed_count': len(self.failed),
            'outcomes': [o.to_dict() for o in self.outcomes],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProvisioningReport':
        try:
            outcomes = data['outcomes']
        except KeyError as e:
            raise ValueError(f"Missing required ProvisioningReport field: {e}")
        return cls(outcomes=tuple(PanelOutcome.from_dict(o) for o in outcomes))
