"""Outbound notifications — calendar publishing of approved leave."""
