"""
Kerbi - Fixed Text for Appeal Letters

Contains the fixed wording for:
- Preamble and salutation
- One grounds paragraph per issue category
- The generic legal-basis paragraph used when no category matched
- Evidence request items
- Submission timing guidance
- Closing

Nothing here varies per request except the {placeholders}.
"""
from typing import Dict, List

from ...models.ssot import IssueCategory


# =============================================================================
# HEADER
# =============================================================================

PREAMBLE = "Formal Representation Against Penalty Charge Notice"

REFERENCE_LINE = "PCN reference: {pcn_number}"
VEHICLE_LINE = "Vehicle registration: {number_plate}"
AUTHORITY_LINE = "Issuing authority: {council}"

SALUTATION = "Dear Sir or Madam,"

INTRODUCTION = (
    "I am writing to make formal representations against the above Penalty Charge "
    "Notice. I do not believe the charge was properly issued, for the reasons set out below, "
    "and I ask that it be cancelled."
)

CIRCUMSTANCES_INTRO = "My account of the circumstances is as follows:"


# =============================================================================
# GROUNDS - one paragraph per matched category
# =============================================================================

GROUND_PARAGRAPHS: Dict[IssueCategory, str] = {
    IssueCategory.SIGNAGE: (
        "Inadequate signage. The restriction was not adequately signed at the location. "
        "Under the Traffic Signs Regulations and General Directions 2016, signs and road "
        "markings must be clearly visible and legible to a driver before the restriction "
        "applies. Where signage is missing, obscured or unclear, the restriction cannot be "
        "enforced and the penalty should be cancelled."
    ),
    IssueCategory.TIMING: (
        "Timing of the contravention. The times recorded on the notice do not establish "
        "that a contravention occurred. The statutory grace period of at least ten minutes "
        "after the end of paid or permitted parking must be observed before a penalty is "
        "issued, and I ask that the enforcement officer's notes and timed photographs be "
        "reviewed against the times stated."
    ),
    IssueCategory.PAYMENT_SYSTEM: (
        "Failure of the payment system. I was unable to pay for parking because the "
        "available payment methods were not working. A motorist who attempts to pay and is "
        "prevented from doing so by a fault in the authority's own equipment has not "
        "committed a contravention. I request the maintenance and fault records for the "
        "machines and payment service serving this location."
    ),
    IssueCategory.ACCESSIBILITY: (
        "Accessibility and disability. The vehicle was being used by or for a disabled "
        "person. Authorities must have regard to their duties under the Equality Act 2010, "
        "and Blue Badge concessions and reasonable adjustments must be considered before a "
        "penalty is enforced against a disabled motorist."
    ),
    IssueCategory.LOADING_EXEMPTION: (
        "Loading exemption. The vehicle was engaged in loading or unloading at the time. "
        "Loading and unloading is an exempt activity on most waiting restrictions, and the "
        "officer should have observed the vehicle for a sufficient period to establish that "
        "no loading activity was taking place before issuing the notice."
    ),
}

GENERAL_GROUND = (
    "Challenge to the legal basis of the charge. I do not accept that the contravention "
    "occurred as alleged. The authority must prove that a valid Traffic Regulation Order "
    "was in force at the location, that it was properly signed, and that the notice was "
    "issued in accordance with the Traffic Management Act 2004 and the associated "
    "regulations. Unless each of these is demonstrated, the charge should be cancelled."
)

EMERGENCY_GROUND = (
    "Mitigating circumstances. The vehicle was parked as it was because of a genuine "
    "medical emergency. I ask that the authority exercise its discretion to cancel the "
    "penalty in light of these circumstances."
)


# =============================================================================
# EVIDENCE REQUEST
# =============================================================================

EVIDENCE_INTRO = "Before any decision is made, please provide copies of the following:"

EVIDENCE_ITEMS: List[str] = [
    "All photographs taken by the civil enforcement officer at the time of the alleged contravention.",
    "The civil enforcement officer's contemporaneous notes and handheld device log.",
    "The Traffic Regulation Order relied upon for this restriction.",
    "Photographs or a schedule of the signs and road markings in place at the location on the date in question.",
    "Maintenance and fault records for any payment machines or payment services serving the location.",
]


# =============================================================================
# SUBMISSION TIMING
# =============================================================================

TIMING_GENERAL = (
    "Submission timing: send this representation within 14 days of the date of the notice "
    "to preserve the discounted penalty rate, and in any event within 28 days, after which "
    "the authority may issue a Notice to Owner or Charge Certificate."
)

TIMING_WITH_DATES = (
    "Submission timing: the notice is dated {notice_date}. Send this representation by "
    "{discount_deadline} to preserve the discounted penalty rate, and no later than "
    "{formal_deadline}, after which the authority may issue a Notice to Owner or Charge "
    "Certificate."
)

DISCOUNT_PERIOD_DAYS = 14
FORMAL_PERIOD_DAYS = 28


# =============================================================================
# CLOSING
# =============================================================================

CLOSING = (
    "I look forward to your written response. If the representation is rejected, please "
    "provide full reasons for the decision and details of my right to appeal to the "
    "independent adjudicator.\n\nYours faithfully,"
)
