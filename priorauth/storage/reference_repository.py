"""Repository for member, claims and coverage policy reference data."""
from datetime import date
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from priorauth.storage.models import MemberModel, ClaimModel, CoveragePolicyModel


class ReferenceRepository:
    """Read access to reference tables."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_member(self, member_id: str) -> Optional[MemberModel]:
        result = await self.session.execute(
            select(MemberModel).where(MemberModel.member_id == member_id)
        )
        return result.scalar_one_or_none()

    async def get_claims_since(self, member_id: str, since: date) -> List[ClaimModel]:
        """Claims for a member with service date on or after ``since``, newest first."""
        result = await self.session.execute(
            select(ClaimModel)
            .where(ClaimModel.member_id == member_id, ClaimModel.service_date >= since)
            .order_by(ClaimModel.service_date.desc(), ClaimModel.claim_id)
        )
        return list(result.scalars().all())

    async def get_policy(self, policy_id: str) -> Optional[CoveragePolicyModel]:
        result = await self.session.execute(
            select(CoveragePolicyModel).where(CoveragePolicyModel.policy_id == policy_id)
        )
        return result.scalar_one_or_none()

    async def find_policies(
        self,
        procedure_code: Optional[str] = None,
        diagnosis_codes: Optional[List[str]] = None,
        policy_type: Optional[str] = None,
    ) -> List[CoveragePolicyModel]:
        """
        Find policies by code membership.

        Code lists are JSON columns, so membership is checked in Python over
        the (small) policy table rather than in SQL.

        Args:
            procedure_code: Policy must list this procedure code
            diagnosis_codes: Policy must share at least one diagnosis code
            policy_type: Policy type filter

        Returns:
            Matching policies in policy_id order
        """
        query = select(CoveragePolicyModel).order_by(CoveragePolicyModel.policy_id)
        if policy_type:
            query = query.where(CoveragePolicyModel.policy_type == policy_type)
        result = await self.session.execute(query)
        policies = list(result.scalars().all())

        if procedure_code:
            policies = [p for p in policies if procedure_code in (p.procedure_codes or [])]
        if diagnosis_codes:
            wanted = set(diagnosis_codes)
            policies = [p for p in policies if wanted.intersection(p.diagnosis_codes or [])]
        return policies
