"""Repository vocabulary shared across the content sync engine.

Property names, reserved namespace prefixes, date formats and URL suffixes
used by the remote content repository's JSON rendering.
"""

from __future__ import annotations

# ============================================================================
# Node properties
# ============================================================================

JCR_PRIMARY_TYPE = "jcr:primaryType"
JCR_CONTENT = "jcr:content"
JCR_CREATED = "jcr:created"
JCR_TITLE = "jcr:title"
JCR_LAST_MODIFIED = "jcr:lastModified"

CQ_LAST_MODIFIED = "cq:lastModified"
CQ_TEMPLATE = "cq:template"
CQ_MODEL = "cq:model"
CQ_TAGS = "cq:tags"
CQ_LAST_REPLICATION_ACTION = "cq:lastReplicationAction"
CQ_LAST_REPLICATION_ACTION_PUBLISH = "cq:lastReplicationAction_publish"
CQ_LAST_REPLICATED = "cq:lastReplicated"
CQ_LAST_REPLICATED_PUBLISH = "cq:lastReplicated_publish"

SLING_RESOURCE_TYPE = "sling:resourceType"

CONTENT_FRAGMENT = "contentFragment"
DATA_FOLDER = "data"
DATA_MASTER = "data/master"
METADATA = "metadata"
ROOT = "root"
TEXT = "text"

ACTIVATE = "Activate"
LAST_MODIFIED_SUFFIX = "@LastModified"

# ============================================================================
# Node types
# ============================================================================

CQ_PAGE = "cq:Page"
DAM_ASSET = "dam:Asset"

STATIC_FILE = "static-file"
CONTENT_FRAGMENT_SUB_TYPE = "content-fragment"

RESPONSIVE_GRID = "wcm/foundation/components/responsivegrid"

# ============================================================================
# Prefixes, suffixes and markers
# ============================================================================

RESERVED_PREFIXES = ("jcr:", "rep:", "cq:")
COMPONENT_SKIP_PREFIXES = ("jcr:", "sling:")

CONTENT_ROOT = "/content"
TAGS_ROOT = "/content/_cq_tags"
TAGS_ENDPOINT_SUFFIX = "/jcr:content.tags.json"

HTML_EXTENSION = ".html"
JSON_EXTENSION = ".json"
INFINITY_JSON = ".infinity.json"

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".svg", ".webp")

SITE_ATTRIBUTE = "site"
ID_ATTRIBUTE = "id"
URL_ATTRIBUTE = "url"
DEFAULT_PROVIDER = "AEM"

# ============================================================================
# Date formats
# ============================================================================

# "Mon Jan 01 2024 10:30:00 GMT+0000", parsed after the names are mapped to
# a month number: "01 01 2024 10:30:00 +0000"
EXTERNAL_DATE_FORMAT = "%m %d %Y %H:%M:%S %z"
DAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
MONTH_NAMES = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)
ISO_UTC_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
