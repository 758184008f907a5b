"""
MSGF spectral-probability scoring: input synthesis, segmented tool runs and result
normalization.
"""
