"""Keyword lists used by the individual scoring heuristics.

All phrases are lowercase and matched as substrings of lowercased text.
"""

# Explicit availability signals, +2 each and counted as a match
OPEN_TO_WORK_KEYWORDS = [
    "immediate joiner",
    "immediately available",
    "open for opportunity",
    "open to opportunity",
    "seeking new opportunity",
    "looking for new",
    "open to work",
    "available immediately",
    "ready to join",
    "actively seeking",
    "job seeking",
    "career change",
    "new opportunities",
    "open for roles",
    "exploring opportunities",
]

# Urgency modifiers, +1 each, not counted as a match
URGENT_KEYWORDS = [
    "immediate",
    "asap",
    "urgent",
    "available now",
    "right away",
]

# Hedged interest, +0.5 each
PASSIVE_KEYWORDS = [
    "open to discuss",
    "interested in hearing",
    "would consider",
    "might be interested",
]

# Signals used to infer the open-to-work flag from a scraped profile
PROFILE_OPEN_SIGNALS = [
    "open to work",
    "seeking",
    "looking for",
    "available",
    "opportunity",
    "job search",
    "actively looking",
]

# Title categories for career continuity
TITLE_CATEGORIES = {
    "technology": [
        "software", "developer", "engineer", "programmer", "architect", "tech",
        "data", "web", "mobile", "frontend", "backend", "fullstack", "devops",
    ],
    "management": ["manager", "director", "lead", "head", "chief", "vp", "president", "senior"],
    "design": ["designer", "ux", "ui", "product", "creative", "visual"],
    "sales": ["sales", "account", "business", "marketing", "customer"],
}
