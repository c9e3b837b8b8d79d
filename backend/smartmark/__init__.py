"""Smart Bookmark"""
