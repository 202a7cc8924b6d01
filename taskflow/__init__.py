"""TaskFlow: task and category management on top of Supabase."""

__version__ = "1.0.0"
