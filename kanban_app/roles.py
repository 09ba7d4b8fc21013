from django.db import models


class Role(models.TextChoices):
    OWNER = 'OWNER', 'Owner'
    ADMIN = 'ADMIN', 'Admin'
    MEMBER = 'MEMBER', 'Member'
    VIEWER = 'VIEWER', 'Viewer'

    @property
    def rank(self):
        return _RANKS[self]

    def at_least(self, minimum):
        return self.rank >= Role(minimum).rank


_RANKS = {
    Role.VIEWER: 1,
    Role.MEMBER: 2,
    Role.ADMIN: 3,
    Role.OWNER: 4,
}
