# Copyright (c) 2024. Tudor Oancea
from .collocation import *
from .config import *
from .constants import *
from .models import *
from .mpc import *
from .sim import *
from .tyre import *
from .utils import *
