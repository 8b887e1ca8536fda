"""
Scenario families exercised by the suite.

Each family module exposes plain ``run_*`` functions that take a
``ScenarioContext`` and report one result record per executed case.
"""
