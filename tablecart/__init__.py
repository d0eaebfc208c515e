"""Optimistic cart synchronization for table-session self ordering."""
