"""
Integration Tests Package for the Car Park Ledger

Integration tests drive complete operator sessions:
1. Scripted console sessions against a real ParkingService
2. Persistence across restarts (CSV flat files and SQLite)
3. Command line entry point error handling
"""
