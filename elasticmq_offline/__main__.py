#!/usr/bin/env python3
"""
Entry point for running elasticmq_offline as a module.
This file enables: python -m elasticmq_offline
"""

from .main import main

if __name__ == '__main__':
    main()
