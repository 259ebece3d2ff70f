from src.db.models.audit import Audit, Auditee, AuditeeDepartment, AuditTeamMember, AuditUniverseItem
from src.db.models.fieldwork import AuditProcedure, RiskAssessment
from src.db.models.issue import AuditIssue, FollowupResponse, IssueReviewNote, ManagementComment
from src.db.models.tenant import Organization, User
from src.db.models.working_paper import (
    TestingProcedureAttachment,
    TestingProcedureDataRow,
    WorkingPaperColumn,
    WorkingPaperTemplate,
)

__all__ = [
    "Audit",
    "AuditIssue",
    "AuditProcedure",
    "AuditTeamMember",
    "AuditUniverseItem",
    "Auditee",
    "AuditeeDepartment",
    "FollowupResponse",
    "IssueReviewNote",
    "ManagementComment",
    "Organization",
    "RiskAssessment",
    "TestingProcedureAttachment",
    "TestingProcedureDataRow",
    "User",
    "WorkingPaperColumn",
    "WorkingPaperTemplate",
]
