"""Mock devices for TEMPFOCUS tests."""
