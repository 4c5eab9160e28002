"""Notifications domain - inbox, channel preferences and push devices"""
