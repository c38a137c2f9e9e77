from .directory import Parish, Department, DepartmentMember, User, SessionToken
from .registers import RegisterConfiguration, RegisterCounter
from .documents import Document, DocumentConnection, WorkflowStep

__all__ = [
    'Parish', 'Department', 'DepartmentMember', 'User', 'SessionToken',
    'RegisterConfiguration', 'RegisterCounter',
    'Document', 'DocumentConnection', 'WorkflowStep',
]
