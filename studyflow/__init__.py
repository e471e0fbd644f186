"""
StudyFlow: adaptive study pipeline.

Ingests source documents, derives a study plan, generates learning
artifacts through an external text-generation oracle, grades learner
submissions, and adapts the roadmap from performance signals.
"""

__version__ = "0.3.0"
