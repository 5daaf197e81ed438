"""
ScriptVision Agents Module

Text-model agents used during scene planning.
"""

from .scene_breakdown_agent import SceneBreakdownAgent, SceneBreakdownResult

__all__ = ['SceneBreakdownAgent', 'SceneBreakdownResult']
