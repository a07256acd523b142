"""Visualizer package - Rich terminal views for plans, transcripts and runs."""

from .plan_view import render_plan
from .transcript_view import render_run, render_run_list, render_transcript

__all__ = [
	"render_plan",
	"render_run",
	"render_run_list",
	"render_transcript",
]
