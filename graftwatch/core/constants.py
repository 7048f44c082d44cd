"""
GraftWatch - Constants and Reference Data
Static values used throughout the application.
"""

from typing import Dict, List, Tuple

# =============================================================================
# DOCUMENT STORE COLLECTIONS
# =============================================================================

COLLECTION_REPORTS = "reports"
COLLECTION_VOTES = "votes"
COLLECTION_COMMENTS = "comments"
COLLECTION_USERS = "users"

# =============================================================================
# REPORTS
# =============================================================================

# Corruption categories offered by the report form
CORRUPTION_TYPES: List[str] = [
    "government-corruption",
    "bribery",
    "land-grab",
    "police-corruption",
    "other",
]

# Labels shown by the Bengali client
CORRUPTION_TYPE_LABELS: Dict[str, str] = {
    "government-corruption": "সরকারি দুর্নীতি",
    "bribery": "ঘুষ",
    "land-grab": "জমি দখল",
    "police-corruption": "পুলিশ দুর্নীতি",
    "other": "অন্যান্য",
}

# Credibility vote kinds, in display order
VOTE_KINDS: Tuple[str, ...] = ("true", "suspicious", "needEvidence")

# =============================================================================
# MAP
# =============================================================================

# Map marker colors per moderation status
STATUS_COLORS: Dict[str, str] = {
    "pending": "orange",
    "approved": "green",
    "rejected": "red",
}
