"""
CampusSync Policy Layer
========================

Components:
    - PolicyScorer:   weighs verification signals into one [0, 1] score
    - DecisionEngine: maps a policy score onto a certificate status
    - check_metadata, DuplicateDetector: field presence and duplicate checks

Nothing outside this package writes a certificate's verification status.
"""
