"""
Adaptive Assessment Engine.

- Rating calculator (pure Elo math)
- Category priority engine
- Question selector
- Quiz generator
- Session settlement

Public entry points live in assessment_engine.engine.
"""
