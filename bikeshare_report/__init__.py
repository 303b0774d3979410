"""
Reporte de uso diario de Bike Sharing: limpieza, exploración y regresión OLS.
Módulos: data, explore, modeling, visualize, report, main (Orchestrator).
"""
