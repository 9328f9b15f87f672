'''
 #  Copyright (c) 2025 Gahan AI Private Limited
 #  Author: Pallab Maji
 #  Create Time: 2025-11-05 10:10:00
 #  Modified time: 2025-11-05 10:10:00
 #  Description: Configuration, label format and image helpers for the YOLOv3 detector.
'''
