"""Real-time delivery - server hub and client session with transport fallback"""
