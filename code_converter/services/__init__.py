"""
Conversion orchestration and history persistence.
"""
