"""
LOGOS: adaptive learning optimization engine.

Pure, synchronous algorithms for language learning:
- ability: IRT ability estimation per linguistic component
- memory: FSRS forgetting curve, review state machine, mastery stages
- collocation: PMI / NPMI collocation statistics over a corpus
- priority: value / cost ranking of candidate learning objects
- diagnosis: cascading bottleneck detection across components
"""

__version__ = "1.0.0"
