"""
Utility modules for metric bundle adjustment
"""

from .io_utils import load_bal, save_bal, save_result_info

__all__ = ["load_bal", "save_bal", "save_result_info"]
