"""Repository layer for the identity reconciliation service.

- contacts: find_by_email_or_phone, find_by_id, find_secondaries_of,
            insert_contact, demote_to_secondary, relink_secondaries, lock_keys,
            and ContactStore (the same operations bound to one session)
"""
