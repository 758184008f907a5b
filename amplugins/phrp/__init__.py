"""
Readers for the tab-delimited peptide-hit result files produced upstream, plus
the MGF spectrum index used to map scans to spectrum positions.
"""
