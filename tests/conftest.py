"""
Pytest configuration for local imports and shared card fixtures.
"""

# Standard Library
import os
import sys

# PIP3 modules
import pytest

#============================================


def _ensure_repo_on_path() -> None:
	"""
	Ensure the repository root is on sys.path.
	"""
	repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
	if repo_root not in sys.path:
		sys.path.insert(0, repo_root)


_ensure_repo_on_path()


#============================================
@pytest.fixture
def card_design() -> dict:
	"""
	A small landscape card design in the tagged node form.
	"""
	return {
		"width": 400,
		"height": 250,
		"background_color": "#FFFFFF",
		"nodes": [
			{"type": "shape", "shape": "rect", "x": 0, "y": 0, "width": 400, "height": 40, "fill_color": "#1E3A8A"},
			{"type": "text", "x": 10, "y": 5, "width": 380, "height": 30, "text": "{{school}}", "color": "#FFFFFF"},
			{"type": "photo", "x": 20, "y": 60, "width": 120, "height": 150, "clip": "rect"},
			{"type": "text", "x": 160, "y": 70, "width": 220, "height": 30, "text": "Name", "field": "name"},
			{"type": "text", "x": 160, "y": 110, "width": 220, "height": 30, "text": "Class {{class}}"},
		],
	}


#============================================
@pytest.fixture
def student_record() -> dict:
	return {
		"name": "Asha Rao",
		"roll_number": 12,
		"class": "7B",
		"school": "Hillside Public School",
		"photo_url": None,
	}
