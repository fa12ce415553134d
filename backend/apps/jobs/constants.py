# apps/jobs/constants.py

from apps.core.state_machine import StateMachine

NEW = 'new'
SCHEDULED = 'scheduled'
DISPATCHED = 'dispatched'
IN_PROGRESS = 'in_progress'
COMPLETED = 'completed'
CANCELED = 'canceled'

JOB_STATUS_CHOICES = [
    (NEW, 'New'),
    (SCHEDULED, 'Scheduled'),
    (DISPATCHED, 'Dispatched'),
    (IN_PROGRESS, 'In Progress'),
    (COMPLETED, 'Completed'),
    (CANCELED, 'Canceled'),
]

JOB_TRANSITIONS = {
    NEW: {SCHEDULED, CANCELED},
    SCHEDULED: {DISPATCHED, NEW, CANCELED},
    DISPATCHED: {IN_PROGRESS, SCHEDULED, CANCELED},
    IN_PROGRESS: {COMPLETED, DISPATCHED},
    COMPLETED: set(),
    CANCELED: {NEW},  # reopen
}

JOB_STATE_MACHINE = StateMachine('Job', JOB_TRANSITIONS)

PRIORITY_LOW = 'low'
PRIORITY_NORMAL = 'normal'
PRIORITY_HIGH = 'high'
PRIORITY_EMERGENCY = 'emergency'

PRIORITY_CHOICES = [
    (PRIORITY_LOW, 'Low'),
    (PRIORITY_NORMAL, 'Normal'),
    (PRIORITY_HIGH, 'High'),
    (PRIORITY_EMERGENCY, 'Emergency'),
]

# Dispatch board order, most urgent first
PRIORITY_RANK = {
    PRIORITY_EMERGENCY: 0,
    PRIORITY_HIGH: 1,
    PRIORITY_NORMAL: 2,
    PRIORITY_LOW: 3,
}

DISPATCHABLE_STATUSES = (NEW, SCHEDULED)
