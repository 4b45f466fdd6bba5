"""
Database models (reference)

The service talks to MySQL with raw SQL (see schema.sql and
services/store.py); these classes document the row shapes and are used
where a typed record reads better than a dict.
"""


class ScheduledInstance:
    """
    One concrete occurrence of a class

    Attributes:
        id (int): schedule ID
        class_id (int): owning class
        start_time (datetime): start
        end_time (datetime): end
    """
    def __init__(self, id, class_id, start_time, end_time):
        self.id = id
        self.class_id = class_id
        self.start_time = start_time
        self.end_time = end_time

    def to_dict(self):
        return {
            'id': self.id,
            'class_id': self.class_id,
            'start_time': self.start_time.isoformat(),
            'end_time': self.end_time.isoformat(),
        }

    def __repr__(self):
        return (f"<ScheduledInstance class {self.class_id} "
                f"{self.start_time:%Y-%m-%d %H:%M}-{self.end_time:%H:%M}>")


class PackageItem:
    """
    A package line: N monthly credits for one class type

    Attributes:
        class_type (str): category label matched against class types
        credits (int): credits per month (> 0)
    """
    def __init__(self, class_type, credits, id=None, package_id=None):
        self.id = id
        self.package_id = package_id
        self.class_type = class_type
        self.credits = credits

    def to_dict(self):
        return {'class_type': self.class_type, 'credits': self.credits}


class UserPackage:
    """
    A user's package for exactly one calendar month

    Attributes:
        id (int): user package ID
        user_id (str): owner
        package_id (int): acquired package
        valid_from (date): first day of the month
        valid_until (date): last day of the month

    Note:
        UNIQUE (user_id, valid_from, valid_until) in the database
    """
    def __init__(self, id, user_id, package_id, valid_from, valid_until):
        self.id = id
        self.user_id = user_id
        self.package_id = package_id
        self.valid_from = valid_from
        self.valid_until = valid_until


class SchedulingRule:
    """
    A recurring weekly slot used by the schedule generator

    Attributes:
        id (int): rule ID
        day_of_week (str): English day name ("Monday" ... "Sunday")
        start_time (time): time of day
        class_id (int): class to schedule
    """
    def __init__(self, id, day_of_week, start_time, class_id):
        self.id = id
        self.day_of_week = day_of_week
        self.start_time = start_time
        self.class_id = class_id
