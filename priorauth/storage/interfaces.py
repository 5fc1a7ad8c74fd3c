"""Abstract storage ports used by the pipeline core and the tools."""
from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Dict, List, Optional

from priorauth.models.prior_auth import PriorAuthRequest
from priorauth.models.progress import WorkflowStep, TraceLogEntry


class PriorAuthStore(ABC):
    """
    Persistence for prior authorization requests and their progress records.

    Implementations must persist workflow steps and trace entries in the
    order they are appended.
    """

    @abstractmethod
    async def get_request(self, request_id: str) -> Optional[PriorAuthRequest]:
        """Load a request, or None if it does not exist."""
        pass

    @abstractmethod
    async def update_request(self, request_id: str, **fields: Any) -> None:
        """
        Apply a partial update to a request.

        Args:
            request_id: Request identifier
            **fields: Column values to set (status, decision_rationale, decision_date, ...)
        """
        pass

    @abstractmethod
    async def append_step(self, step: WorkflowStep) -> None:
        """Persist one workflow step."""
        pass

    @abstractmethod
    async def delete_steps(self, request_id: str) -> int:
        """Delete every workflow step of a request. Returns the number removed."""
        pass

    @abstractmethod
    async def list_steps(self, request_id: str) -> List[WorkflowStep]:
        """List workflow steps of a request ordered by step number."""
        pass

    @abstractmethod
    async def append_trace(self, entry: TraceLogEntry) -> None:
        """Persist one trace entry."""
        pass

    @abstractmethod
    async def delete_traces(self, request_id: str) -> int:
        """Delete every trace entry of a request. Returns the number removed."""
        pass

    @abstractmethod
    async def list_traces(self, request_id: str) -> List[TraceLogEntry]:
        """List trace entries of a request in insertion order."""
        pass


class ReferenceDataSource(ABC):
    """Read access to the member, claims and coverage policy data products."""

    @abstractmethod
    async def get_member(self, member_id: str) -> Optional[Dict[str, Any]]:
        """Get a member record, or None."""
        pass

    @abstractmethod
    async def list_claims(self, member_id: str, since: date) -> List[Dict[str, Any]]:
        """List a member's claims with service date on or after ``since``, newest first."""
        pass

    @abstractmethod
    async def list_policies(
        self,
        procedure_code: Optional[str] = None,
        diagnosis_codes: Optional[List[str]] = None,
        policy_type: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        List coverage policies.

        Args:
            procedure_code: Keep policies covering this cleaned procedure code
            diagnosis_codes: Keep policies sharing at least one of these codes
            policy_type: Keep policies of this type (NCD, LCD, internal)

        Returns:
            Matching policy records
        """
        pass

    @abstractmethod
    async def get_policy(self, policy_id: str) -> Optional[Dict[str, Any]]:
        """Get a coverage policy, or None."""
        pass
