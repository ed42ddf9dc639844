"""
CampusSync Background Jobs
===========================

Components:
    - JobQueue:          persistent queue with status, history and cleanup
    - ProcessorRegistry: JobType → (payload model, async processor)
    - JobWorker:         polls the queue and dispatches one job per tick
"""
