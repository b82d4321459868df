"""Writers and readers for the canonical Supabase store."""
