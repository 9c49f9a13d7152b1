"""
core/constants.py -- Closed vocabularies shared by the stores, reports and API.

Each enum is a str subclass so members compare equal to their stored value
("Active" == ChildStatus.active) and serialize as plain strings. The API layer
uses them as pydantic field types; stores and reports iterate them to build
zero-filled distributions.

Layer rule: core/ is the kernel. No imports from api/, auth/, or records/.
"""

from enum import Enum

# Nigerian mobile and landline numbers: +234 or 0, then a 7/8/9 network digit,
# a 0/1 second digit and eight more digits.
PHONE_PATTERN = r"^(\+234|0)[789][01]\d{8}$"
NIN_PATTERN = r"^\d{11}$"


class Gender(str, Enum):
    male = "Male"
    female = "Female"


class MaritalStatus(str, Enum):
    single = "Single"
    married = "Married"
    divorced = "Divorced"
    widowed = "Widowed"


class NigerianState(str, Enum):
    abia = "Abia"
    adamawa = "Adamawa"
    akwa_ibom = "Akwa Ibom"
    anambra = "Anambra"
    bauchi = "Bauchi"
    bayelsa = "Bayelsa"
    benue = "Benue"
    borno = "Borno"
    cross_river = "Cross River"
    delta = "Delta"
    ebonyi = "Ebonyi"
    edo = "Edo"
    ekiti = "Ekiti"
    enugu = "Enugu"
    gombe = "Gombe"
    imo = "Imo"
    jigawa = "Jigawa"
    kaduna = "Kaduna"
    kano = "Kano"
    katsina = "Katsina"
    kebbi = "Kebbi"
    kogi = "Kogi"
    kwara = "Kwara"
    lagos = "Lagos"
    nasarawa = "Nasarawa"
    niger = "Niger"
    ogun = "Ogun"
    ondo = "Ondo"
    osun = "Osun"
    oyo = "Oyo"
    plateau = "Plateau"
    rivers = "Rivers"
    sokoto = "Sokoto"
    taraba = "Taraba"
    yobe = "Yobe"
    zamfara = "Zamfara"
    fct = "FCT"


# ---------------------------------------------------------------------------
# Staff
# ---------------------------------------------------------------------------


class Position(str, Enum):
    director = "Director"
    assistant_director = "Assistant Director"
    administrator = "Administrator"
    system_administrator = "System Administrator"
    social_worker = "Social Worker"
    child_care_worker = "Child Care Worker"
    teacher = "Teacher"
    nurse = "Nurse"
    medical_officer = "Medical Officer"
    cook = "Cook"
    security_officer = "Security Officer"
    cleaner = "Cleaner"
    maintenance = "Maintenance"
    volunteer = "Volunteer"
    intern = "Intern"
    manager = "Manager"
    supervisor = "Supervisor"
    counselor = "Counselor"
    driver = "Driver"


class Department(str, Enum):
    administration = "Administration"
    child_care = "Child Care"
    education = "Education"
    medical = "Medical"
    kitchen = "Kitchen"
    security = "Security"
    maintenance = "Maintenance"
    social_services = "Social Services"


class EmploymentStatus(str, Enum):
    active = "Active"
    on_leave = "On Leave"
    suspended = "Suspended"
    terminated = "Terminated"
    resigned = "Resigned"


class EmploymentType(str, Enum):
    full_time = "Full-time"
    part_time = "Part-time"
    contract = "Contract"
    volunteer = "Volunteer"


# ---------------------------------------------------------------------------
# Children
# ---------------------------------------------------------------------------


class ChildStatus(str, Enum):
    active = "Active"
    exited = "Exited"
    transferred = "Transferred"
    adopted = "Adopted"
    family_reunification = "Family Reunification"


class Language(str, Enum):
    english = "English"
    hausa = "Hausa"
    yoruba = "Yoruba"
    igbo = "Igbo"
    fulfulde = "Fulfulde"
    other = "Other"


class Religion(str, Enum):
    christianity = "Christianity"
    islam = "Islam"
    traditional = "Traditional"
    other = "Other"


class BloodType(str, Enum):
    a_pos = "A+"
    a_neg = "A-"
    b_pos = "B+"
    b_neg = "B-"
    ab_pos = "AB+"
    ab_neg = "AB-"
    o_pos = "O+"
    o_neg = "O-"
    unknown = "Unknown"


class Genotype(str, Enum):
    aa = "AA"
    as_ = "AS"
    ss = "SS"
    ac = "AC"
    sc = "SC"
    cc = "CC"
    unknown = "Unknown"


class EducationLevel(str, Enum):
    pre_school = "Pre-School"
    primary_1 = "Primary 1"
    primary_2 = "Primary 2"
    primary_3 = "Primary 3"
    primary_4 = "Primary 4"
    primary_5 = "Primary 5"
    primary_6 = "Primary 6"
    jss_1 = "JSS 1"
    jss_2 = "JSS 2"
    jss_3 = "JSS 3"
    sss_1 = "SSS 1"
    sss_2 = "SSS 2"
    sss_3 = "SSS 3"
    tertiary = "Tertiary"
    vocational = "Vocational Training"
    out_of_school = "Out of School"


VACCINES = ("bcg", "polio", "dpt", "measles", "yellow_fever", "hepatitis_b")

# (label, lowest age, highest age) in whole years, inclusive.
AGE_GROUPS: tuple[tuple[str, int, int], ...] = (
    ("0-2", 0, 2),
    ("3-5", 3, 5),
    ("6-11", 6, 11),
    ("12-17", 12, 17),
    ("18+", 18, 200),
)


# ---------------------------------------------------------------------------
# Attachments
# ---------------------------------------------------------------------------


class EntityType(str, Enum):
    children = "children"
    staff = "staff"


class DocumentType(str, Enum):
    birth_certificate = "Birth Certificate"
    medical = "Medical"
    legal = "Legal"
    school = "School"
    cv = "CV"
    certificate = "Certificate"
    contract = "Contract"
    identification = "ID"
    other = "Other"
