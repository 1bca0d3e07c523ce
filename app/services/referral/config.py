"""
Referral system configuration.

Contains constants for the referral graph and commission levels.
Percentages and depth are runtime settings (MembershipConfig).
"""

# Level 1 is the direct sponsor; levels 2.. are the network
SPONSOR_LEVEL = 1

# Hard ceiling for upline walks regardless of configuration
MAX_UPLINE_DEPTH_LIMIT = 32
