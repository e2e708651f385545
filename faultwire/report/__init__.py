"""Report model: severities, events and raw data classification."""
