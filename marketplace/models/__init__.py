"""
Models package initialization
Import all models so Base.metadata knows every table
"""

from .cart_item import CartItem
from .course import Course
from .course_enrollment import CourseEnrollment
from .group_purchase import GroupPurchase
from .learner_profile import LearnerProfile
from .ledger import SettlementMarker, TutorEarning, VatLedger
from .notification import Notification
from .promo_code import PromoCode, PromoCodeAllowedUser, PromoRedemption
from .transaction import Transaction, TransactionLineItem
from .user import User

__all__ = [
    "CartItem",
    "Course",
    "CourseEnrollment",
    "GroupPurchase",
    "LearnerProfile",
    "Notification",
    "PromoCode",
    "PromoCodeAllowedUser",
    "PromoRedemption",
    "SettlementMarker",
    "Transaction",
    "TransactionLineItem",
    "TutorEarning",
    "User",
    "VatLedger",
]
