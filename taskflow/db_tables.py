# db_tables.py: single source of truth for table names and task constants
TASKS        = "tasks"           # default schema: public
CATEGORIES   = "categories"

PRIORITIES = ("low", "medium", "high")
PRIORITY_RANK = {"high": 3, "medium": 2, "low": 1}
DEFAULT_PRIORITY = "medium"

TITLE_MAX_LEN = 255
TITLE_SHORT_LEN = 3
DESCRIPTION_MAX_LEN = 2000

DEFAULT_CATEGORY_COLOR = "#6b7280"
IMPORT_CATEGORY_COLOR = "#3B82F6"
CATEGORY_COLORS = (
    "#ef4444", "#f97316", "#f59e0b", "#eab308",
    "#84cc16", "#22c55e", "#10b981", "#14b8a6",
    "#06b6d4", "#0ea5e9", "#3b82f6", "#6366f1",
    "#8b5cf6", "#a855f7", "#d946ef", "#ec4899",
    "#f43f5e",
)

EXPORT_VERSION = "1.0"
