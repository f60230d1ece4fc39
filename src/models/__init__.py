from .base import Base
from .class_model import ClassModel
from .class_student import ClassStudentModel
from .invite_token import InviteTokenModel
from .parent_invite import ParentInviteModel
from .parent_student import ParentStudentModel
from .school import SchoolModel
from .user import ProfileModel

__all__ = [
    "Base",
    "ClassModel",
    "ClassStudentModel",
    "InviteTokenModel",
    "ParentInviteModel",
    "ParentStudentModel",
    "ProfileModel",
    "SchoolModel",
]
