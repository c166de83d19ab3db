# -*- coding: utf-8 -*-
"""
Carbon Calculation REST API - EcoTrace Carbon Calculation Pipeline

Author: EcoTrace Platform Team
Date: October 2026
Status: Production Ready
"""

from ecotrace.carbon_calculation.api.router import router

__all__ = ["router"]
