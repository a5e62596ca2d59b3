from enum import Enum


class TimelineCategory(str, Enum):
    LABS = "Labs"
    SURGERIES = "Surgeries"
    PRESCRIPTIONS = "Prescriptions"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class BloodGroup(str, Enum):
    A_POSITIVE = "A+"
    A_NEGATIVE = "A-"
    B_POSITIVE = "B+"
    B_NEGATIVE = "B-"
    AB_POSITIVE = "AB+"
    AB_NEGATIVE = "AB-"
    O_POSITIVE = "O+"
    O_NEGATIVE = "O-"


class UsageStatus(str, Enum):
    YES = "Yes"
    NO = "No"
    FORMER = "Former"


class DependenceStatus(str, Enum):
    YES = "Yes"
    NO = "No"


class Theme(str, Enum):
    DARK = "dark"
    LIGHT = "light"


class AdvisorySource(str, Enum):
    EXTERNAL = "external"
    CACHE = "cache"
    FALLBACK = "fallback"
    EMPTY = "empty"
