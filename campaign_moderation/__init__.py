"""Fundraising campaign moderation pipeline."""
