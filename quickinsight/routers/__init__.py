"""QuickInsight API routers."""
