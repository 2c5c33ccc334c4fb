# Services package init
"""
Blaze Backend — Services Layer
===============================

What:  Business logic between the routes (HTTP) and the database.

Service Inventory:
    - PushDispatcher (abstract): deliver one payload to one device
    - WebPushDispatcher: PushDispatcher over the Web Push protocol (VAPID)
    - NotificationFanOut: one payload to many devices, aggregate result
    - ConfirmationRendezvous: prompt the alarm owner and wait for the answer
    - ResponseCorrelator: hand a device's answer to the waiting request
    - AlarmStore: users / alarms / subscriptions lookups and writes
    - AccountService: subscriptions, alarm assignment, broadcast, dashboard
    - auth_service: bearer token and controller key dependencies
"""
