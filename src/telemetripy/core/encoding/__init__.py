"""Wire encoders for log entries and session snapshots."""
