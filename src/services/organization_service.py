"""Organization lookups."""

from typing import Optional

from sqlalchemy.orm import Session

from db.models import Organization


class OrganizationService:

    def __init__(self, db: Session):
        self.db = db

    def get_org_by_id(self, organization_id: str) -> Optional[Organization]:
        return self.db.query(Organization).filter(Organization.id == organization_id).first()

    def create_organization(self, name: str) -> Organization:
        org = Organization(name=name)
        self.db.add(org)
        self.db.flush()
        return org
