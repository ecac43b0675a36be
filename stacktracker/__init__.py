"""Stack Tracker — customer tool-stack alignment against MSP baselines."""
